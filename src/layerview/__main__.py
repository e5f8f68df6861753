from layerview.cli import app

app(prog_name="layerview")

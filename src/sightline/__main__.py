from sightline.cli import app

app(prog_name="sightline")

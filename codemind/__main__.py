# codemind/__main__.py
from codemind.cli import app

if __name__ == "__main__":
    app(prog_name="codemind")

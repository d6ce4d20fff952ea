"""
CLI entry point, when used as a module: `python -m kreconcile`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kreconcile").
"""
from kreconcile import cli

if __name__ == '__main__':
    cli.main()

"""Allow ``python -m simpletls``."""

from simpletls.cli.main import main

main()

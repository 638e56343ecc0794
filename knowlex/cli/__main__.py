"""Allow ``python -m knowlex.cli`` execution."""

from knowlex.cli.files import main

main()

"""Allow ``python -m milou_ssl``."""

from milou_ssl.cli.main import main

main()

"""Allow ``python -m ragingest.cli`` execution."""

from ragingest.cli.ingest import main

main()

"""Allow ``python -m tenantrag.cli`` execution."""

from tenantrag.cli.ingest import main

main()

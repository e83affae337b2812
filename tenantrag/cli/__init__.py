"""Command-line tools for tenantrag.

- ``python -m tenantrag.cli ingest`` uploads a local file for a tenant and
  runs the ingestion job in the foreground.
- ``python -m tenantrag.cli train`` trains an agent on its ready documents.
- ``python -m tenantrag.cli ask`` asks an agent a question.
- ``python -m tenantrag.cli delete`` removes a document with its vectors.
- ``python -m tenantrag.cli status`` shows a document's ingestion status.
"""

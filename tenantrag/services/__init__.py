"""Business services: ingestion, retrieval, response composition, chat, scraping."""

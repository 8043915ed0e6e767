"""Use cases for competitor scraping and analysis.

Each use case:
- Writes a ``running`` record to the key-value store before any remote work
- Scrapes through Apify actor runs polled to completion (see ``remote_job``)
- Sends the scraped content to Gemini and extracts a structured payload
- Replaces the placeholder with a ``completed`` or ``failed`` record
"""

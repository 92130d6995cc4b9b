"""
Services layer - the feed pipeline's business logic.

1. Ingestion (ingestion/):
   - Fetching, parsing and extracting articles from RSS/RDF/Atom feeds
   - Ingestion runs over all enabled sources

2. Sources (sources/):
   - Feed discovery and validation for new sites
   - Incremental quality scoring from fetch outcomes
   - Onboarding, bulk import and performance reporting

3. Classification (classifier.py):
   - Keyword category classifier and the category cache

4. Stores (stores.py):
   - Article, source and category persistence
"""

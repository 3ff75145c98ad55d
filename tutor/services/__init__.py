# =============================================================================
# Services Package — Building Blocks and External Clients
# =============================================================================
#   - extractor.py:    HTML → title + normalised text (BeautifulSoup)
#   - fetcher.py:      HTTP page download (httpx)
#   - chunker.py:      sentence-aware character chunking with overlap
#   - rate_limiter.py: pacing for embedding calls (token bucket / Redis)
#   - embedder.py:     OpenAI-compatible embedding client
#   - llm.py:          multi-provider generative text client
#   - guardrails.py:   advice-seeking classifier and follow-up suggestions
#   - vectorstore.py:  document/chunk persistence and similarity search
# =============================================================================

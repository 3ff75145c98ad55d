# =============================================================================
# Agents Package — Pipelines
# =============================================================================
#   - ingestion.py:    fetch → extract → chunk → embed → store, per URL
#   - context.py:      context block, prompt and citation assembly
#   - orchestrator.py: LangGraph query graph (classify → embed → retrieve
#                      → assemble → generate → cite)
# =============================================================================

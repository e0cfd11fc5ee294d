# notebridge MCP Server
#
# Modular package structure:
# - config.py: pydantic-settings configuration (vault, Jira, Confluence, server)
# - logging.py: structlog configuration
# - models.py: Note, SearchResult, TagCount and remote response models
# - utils.py: Regex patterns, front matter and link parsing, validation
# - vault.py: Vault walker and document loader
# - search.py: Search engine, tag aggregation and vault statistics
# - cache.py: Optional read-through TTL cache for tool results
# - remote.py, jira.py, confluence.py: Remote API clients
# - tools.py: MCP tool handlers and server factory
# - main.py: Entry point and server initialization

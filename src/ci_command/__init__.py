"""CI slash command bridge for GitHub pull requests.

This package turns a `/ci [module]` pull request comment into a GitHub
Actions workflow run and mirrors the run's progress back onto the pull
request as commit statuses:
- GitHub webhook signature verification and event filtering
- Slash command parsing and module to workflow resolution
- Workflow dispatch and run discovery
- Run/job polling and commit status reporting
"""

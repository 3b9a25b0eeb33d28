"""Application services: use-case orchestration on top of repositories and ports."""

"""
TruthForge — Clients

Adapters for everything outside the process: files, subprocesses, git.
"""

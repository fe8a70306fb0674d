"""Command-line tools for tiercache.

- ``python -m tiercache.cli`` - inspect and maintain the on-disk cache
  state (persistent tier and response stores).
"""

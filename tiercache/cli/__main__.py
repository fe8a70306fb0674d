"""Allow ``python -m tiercache.cli`` execution."""

from tiercache.cli.cache_admin import main

main()

"""WordPress site workflows.

Submodules:
- cli: WP-CLI wrappers
- site: site paths plus diagnose, backup and restore
- installer: install and remove
"""

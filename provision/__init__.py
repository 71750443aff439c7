"""Workstation provisioning workflows.

Submodules:
- orchestrator: ordered steps, run context, rollback
- confwriter: key/value config edits returning revertible changes
- backups: timestamped file backups and site archives
- system: packages and services
- db: MariaDB helpers
- php, nginx, stack, shell: workflow step lists
- wordpress: per-site install and maintenance
"""

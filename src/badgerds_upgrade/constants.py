"""badgerds-upgrade constants.

Split into two categories:
1. REPOSITORY LAYOUT: names fixed by the repository format
2. MIGRATION: implementation details of the upgrade itself

Tunable values have their defaults here and are overridden via
UpgradeSettings (see config.py).
"""

# =============================================================================
# REPOSITORY LAYOUT
# =============================================================================

# The only repository version this tool knows how to upgrade
SUPPORTED_REPO_VERSION = 6

VERSION_FILE = "version"
SPEC_FILE = "datastore_spec"
CONFIG_FILE = "config"

# Datastore types that may appear in the spec
MOUNT_TYPE = "mount"
MEASURE_TYPE = "measure"
BADGER_TYPE = "badgerds"
FLATFS_TYPE = "flatfs"
LEVELDB_TYPE = "levelds"


# =============================================================================
# MIGRATION
# =============================================================================

# Directory name prefixes under the repository root
TEMP_DIR_PREFIX = "badger-"
BACKUP_DIR_PREFIX = "badger-backup-"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

# Producer may run at most one record ahead of the consumer
HANDOFF_CAPACITY = 1

DEFAULT_PROGRESS_INTERVAL = 1000

# Prefix of the error a store raises when its manifest version is foreign
UNSUPPORTED_VERSION_PREFIX = "manifest has unsupported version:"

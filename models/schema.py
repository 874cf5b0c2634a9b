# Centralized collection names to prevent drift.

COL_SYSTEM = "system"

# megadata_collections/{collection_id}
COL_COLLECTIONS = "megadata_collections"
# megadata_collections/{collection_id}/tokens/{token_id}
COL_TOKENS = "tokens"
# modules/{module_id}
COL_MODULES = "modules"

# Monotonic counter doc for collection ids: system/collection_counter
DOC_COLLECTION_COUNTER = "collection_counter"

COLLECTION_KIND_DEFAULT = "default"
COLLECTION_KIND_EXTERNAL = "external"

SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_DONE = "done"

# Reserved module ids: these carry authorization semantics, not data shape.
MODULE_EXTENDING_COLLECTION = "extending_collection"
MODULE_EXTENDING_METADATA = "extending_metadata"
MODULE_ERC721 = "erc721"

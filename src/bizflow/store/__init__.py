"""Entity store and document backends.

    base.py          DocumentBackend protocol, path + id helpers
    entity_store.py  per-collection store, Snapshot, Subscription
    memory.py        in-process realtime backend
    files.py         frontmatter Markdown files on local disk
    firestore.py     Cloud Firestore (optional, 'bizflow[firestore]')
"""

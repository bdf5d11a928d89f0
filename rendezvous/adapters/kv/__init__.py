"""Key-value engine adapters backing the rendezvous store.

Engines expose plain get/put/delete/exists on byte-string keys. They offer no
compare-and-swap, so the store serialises its own read-modify-write steps.
"""

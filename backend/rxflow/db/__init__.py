"""
Subscription storage.

store.py defines the DocumentStore port; memory_store, sql_store and
firestore provide the adapters.
"""

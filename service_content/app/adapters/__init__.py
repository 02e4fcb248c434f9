"""
Adapters package for the content layer.

Contains the storage backends (key-value and row stores) and the HTTP
origin client. Adapters map backend failures to shared errors and carry
no caching or throttling policy of their own.
"""

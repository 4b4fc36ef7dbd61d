"""storyhook: StoryChief webhook receiver.

Accepts signed publish/update/delete/test notifications and reconciles
them against the local content store.
"""

__version__ = "0.3.0"

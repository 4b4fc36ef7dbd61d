"""Webhook inbound system.

Receives StoryChief webhooks on a single endpoint.
Each webhook is MAC-verified, routed by ``meta.event`` and the response
is re-signed before it leaves the process.
"""

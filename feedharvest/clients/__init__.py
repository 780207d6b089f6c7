"""
FeedHarvest Clients
===================

HTTP session setup and the CMS crawler API client.
"""

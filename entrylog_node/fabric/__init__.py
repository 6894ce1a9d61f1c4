"""
Fabric client layer: connection profiles, the filesystem wallet, gateway
sessions and the peer CLI runner that backs contract calls.
"""

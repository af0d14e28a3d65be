"""
torsnap forwarding proxy.

Local HTTP entry point that relays ``/onion/*`` requests over the Tor SOCKS
route, so a browser without Tor settings can still load onion pages.
"""

# src/p2p_recon/__init__.py
__version__ = "0.1.0"

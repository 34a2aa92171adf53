"""Liveness, JSON-RPC and IPv6 checks for public blockchain RPC endpoints."""

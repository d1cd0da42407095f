# =======================================================================================
# smartvisitor/api/__init__.py - HTTP & WebSocket Layer
# =======================================================================================

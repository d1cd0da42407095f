# =======================================================================================
# smartvisitor/api/routes/__init__.py - Route Modules
# =======================================================================================

"""
FastAPI routers for the import API.

Template catalog endpoints live in ``csv_templates``; file upload and
preview endpoints live in ``imports``.
"""

"""
auth_service package

Core backend logic for the Talaty authentication service:

- FastAPI application factory (`main.py`) and routers (`routes/`)
- SQLAlchemy models and database integration (`models.py`, `db.py`)
- Credential validation (`schemas.py`, `validation.py`)
- Password hashing (`auth.py`), JWT lifecycle (`tokens.py`) and field
  encryption (`cipher.py`)
"""

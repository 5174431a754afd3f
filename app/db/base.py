# app/db/base.py
from sqlalchemy.orm import declarative_base

# ------------------------------------------------------------
# BASE DICHIARATIVA SQLALCHEMY
# ------------------------------------------------------------
# NB: i modelli non vengono importati qui (import circolare);
# li registrano init_db() e migrations/env.py tramite `app.models`.
Base = declarative_base()

from fastapi import Depends
from sqlalchemy.orm import Session

from agency.db.session import get_db
from agency.services.form_config import FormConfigStore, SqlFormConfigStore


def get_form_store(db: Session = Depends(get_db)) -> FormConfigStore:
    return SqlFormConfigStore(db)

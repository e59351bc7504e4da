from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session, sessionmaker

from marketplace.core.database import get_db
from marketplace.services.notifications import BackgroundNotifier, DatabaseNotifier, Notifier


def get_notifier(background_tasks: BackgroundTasks, db: Session = Depends(get_db)) -> Notifier:
    """Notifier dependency: rows are written after the response, on the request's engine"""
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
    return BackgroundNotifier(background_tasks, DatabaseNotifier(session_factory))

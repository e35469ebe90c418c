import logging

from fastapi import FastAPI

from recurring_scheduler.config import settings
from recurring_scheduler.routes import router

app = FastAPI(title="Recurring Transaction Scheduler", version="0.1.0")
app.include_router(router)


def run() -> None:
    import uvicorn

    logging.basicConfig(level=settings.log_level)
    uvicorn.run(
        "recurring_scheduler.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.scheduler_env == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()

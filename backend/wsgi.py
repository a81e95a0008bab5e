# backend/wsgi.py
# Entry point for `flask --app wsgi ...` and the local service.
from syncpos import create_app
from syncpos.sync.scheduler import get_scheduler

app = create_app()

if app.config["SYNC_SCHEDULER_ENABLED"]:
    get_scheduler(app).start_periodic_push()


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5000, use_reloader=False)

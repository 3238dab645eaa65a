from fieldsync import create_app

app = create_app()

# Run a single gunicorn worker per device: the replay scheduler and rate
# limiter keep their state in-process.
#   gunicorn -w 1 wsgi:app

from src.workforce_attendance.workforce_attendance.main import create_app

app = create_app()

if __name__ == "__main__":
    # Threaded so event-stream clients do not block command requests.
    app.run(debug=app.config["DEBUG"], threaded=True)

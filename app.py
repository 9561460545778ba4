from uavguard import create_app, socketio

app = create_app()

if __name__ == "__main__":
    # Development server; progress events need the SocketIO runner, not app.run
    socketio.run(app, host=app.config['HOST'], port=app.config['PORT'], debug=app.config['DEBUG'])

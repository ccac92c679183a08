import os

from yard import create_app, socketio

app = create_app()

if __name__ == '__main__':
    host = os.environ.get('HOST', '127.0.0.1')
    port = int(os.environ.get('PORT', '5000'))
    app.logger.info(f'[startup] host={host} port={port} map={app.extensions["yard"].graph.name}')
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, host=host, port=port, debug=os.environ.get('FLASK_DEBUG', '1') == '1')

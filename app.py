import os
SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'gevent')
if SOCKETIO_ASYNC_MODE == 'gevent':
    from gevent import monkey
    monkey.patch_all()

from flask import Flask, render_template, request, jsonify
from flask_socketio import SocketIO, join_room, leave_room, emit
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
from dataclasses import dataclass
from typing import Optional
from game.logic import GameEngine, Summary, X, O, DRAW
import random, string, math

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'a_secret_key')
# ── Database path ─────────────────────────────────────────────────────────────
# DATABASE_URL wins when set (Postgres on a host, sqlite:// in tests).
# Otherwise SQLite in an 'instance' folder next to app.py.
_db_url = os.environ.get('DATABASE_URL', None)
if _db_url and _db_url.startswith('postgres://'):
    # SQLAlchemy 1.4+ requires postgresql:// not postgres://
    _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
if not _db_url:
    _data_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'instance')
    os.makedirs(_data_dir, exist_ok=True)
    _db_url = f'sqlite:///{os.path.join(_data_dir, "db.sqlite3")}'
app.config['SQLALCHEMY_DATABASE_URI'] = _db_url
db = SQLAlchemy(app)
migrate = Migrate(app, db)
socketio = SocketIO(app, async_mode=SOCKETIO_ASYNC_MODE)

PORT               = int(os.environ.get('PORT', 8080))
RECENT_GAMES_LIMIT = 50

# room code -> {"engine": GameEngine, "owner": sid, "recorded": bool}
rooms = {}

# ── Models ───────────────────────────────────────────────────────────────────
class Game(db.Model):
    __tablename__ = 'games'
    id          = db.Column(db.Integer, primary_key=True)
    winner      = db.Column(db.String(4), nullable=False, index=True)
    moves       = db.Column(db.JSON, nullable=False, default=list)
    final_board = db.Column(db.JSON, nullable=False, default=lambda: [""]*9)
    duration    = db.Column(db.Integer, nullable=False, default=0, server_default='0')
    created_at  = db.Column(db.DateTime, server_default=db.func.now())
    updated_at  = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            'id':         self.id,
            'winner':     self.winner,
            'moves':      self.moves,
            'finalBoard': self.final_board,
            'duration':   self.duration,
            'createdAt':  self.created_at.isoformat() if self.created_at else None,
            'updatedAt':  self.updated_at.isoformat() if self.updated_at else None,
        }

# ── Recording ────────────────────────────────────────────────────────────────
def _is_int(v): return isinstance(v, int) and not isinstance(v, bool)

def validate_summary(data):
    """Return an error message if `data` is not a finished-game summary, else None."""
    if not isinstance(data, dict):
        return 'Body must be a JSON object'
    if not data.get('winner') or data.get('moves') is None or data.get('finalBoard') is None:
        return 'Missing required fields'
    if data['winner'] not in (X, O, DRAW):
        return 'winner must be one of X, O, draw'
    moves = data['moves']
    if not isinstance(moves, list):
        return 'moves must be a list'
    for m in moves:
        if not isinstance(m, dict) or m.get('player') not in (X, O):
            return 'each move needs a player of X or O'
        if not _is_int(m.get('position')) or not 0 <= m['position'] <= 8:
            return 'each move needs a position 0-8'
        if not _is_int(m.get('timestamp')):
            return 'each move needs an integer timestamp'
    board = data['finalBoard']
    if not isinstance(board, list) or len(board) != 9 or any(c not in ("", X, O) for c in board):
        return 'finalBoard must be 9 cells of "", "X" or "O"'
    duration = data.get('duration', 0)
    if duration is not None and (not _is_int(duration) or duration < 0):
        return 'duration must be a non-negative integer'
    return None

@dataclass
class RecordResult:
    ok: bool
    game: Optional[Game] = None
    error: Optional[str] = None

class GameRecorder:
    """Writes finished-game summaries to the games table."""

    def record(self, summary):
        data = summary.to_dict() if isinstance(summary, Summary) else summary
        error = validate_summary(data)
        if error:
            return RecordResult(False, error=error)
        game = Game(winner=data['winner'], moves=data['moves'],
                    final_board=data['finalBoard'], duration=data.get('duration') or 0)
        try:
            db.session.add(game)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            print(f"[record] Could not save game: {e}")
            return RecordResult(False, error=str(e))
        return RecordResult(True, game=game)

recorder = GameRecorder()

# ── Stats ────────────────────────────────────────────────────────────────────
def _percent(part, total):
    # half-up, so 50.5 -> 51
    return math.floor(part / total * 100 + 0.5) if total > 0 else 0

def compute_stats():
    total = Game.query.count()
    x_wins = Game.query.filter_by(winner=X).count()
    o_wins = Game.query.filter_by(winner=O).count()
    draws  = Game.query.filter_by(winner=DRAW).count()
    return {
        'totalGames': total,
        'xWins':      x_wins,
        'oWins':      o_wins,
        'draws':      draws,
        'xWinRate':   _percent(x_wins, total),
        'oWinRate':   _percent(o_wins, total),
        'drawRate':   _percent(draws, total),
    }

# ── Routes ───────────────────────────────────────────────────────────────────
@app.route('/')
def index(): return render_template('index.html')

@app.route('/health')
def health(): return jsonify({'status': 'OK', 'message': 'Server is running'})

@app.route('/api/games', methods=['GET'])
def list_games():
    try:
        games = (Game.query.order_by(Game.created_at.desc(), Game.id.desc())
                 .limit(RECENT_GAMES_LIMIT).all())
    except SQLAlchemyError as e:
        db.session.rollback()
        print(f"[api] Error fetching games: {e}")
        return jsonify({'error': 'Failed to fetch games'}), 500
    return jsonify([g.to_dict() for g in games])

@app.route('/api/games', methods=['POST'])
def save_game():
    data = request.get_json(silent=True)
    error = validate_summary(data)
    if error:
        return jsonify({'error': error}), 400
    result = recorder.record(data)
    if not result.ok:
        return jsonify({'error': 'Failed to save game'}), 500
    return jsonify(result.game.to_dict()), 201

@app.route('/api/stats')
def stats():
    try:
        return jsonify(compute_stats())
    except SQLAlchemyError as e:
        db.session.rollback()
        print(f"[api] Error fetching stats: {e}")
        return jsonify({'error': 'Failed to fetch statistics'}), 500

# ── Helpers ───────────────────────────────────────────────────────────────────
def new_room():
    while True:
        code = ''.join(random.choices(string.digits, k=5))
        if code not in rooms: return code

def owned_room(data):
    """Room dict for data['room'] if the sender owns it, else None."""
    if not isinstance(data, dict) or not isinstance(data.get('room'), str): return None
    room_data = rooms.get(data['room'])
    if not room_data or room_data['owner'] != request.sid:
        return None
    return room_data

def _parse_position(raw):
    # clients may send "4"; anything else unparseable goes to the engine as-is
    if isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            pass
    return raw

def finish_game(room, room_data, summary):
    """Hand a terminal summary to the recorder, once per game."""
    if room_data['recorded']: return
    room_data['recorded'] = True
    result = recorder.record(summary)
    if result.ok:
        emit('stats', compute_stats(), broadcast=True)
    else:
        print(f"[record] Room {room} result not saved: {result.error}")
        emit('saveFailed', {'error': result.error}, to=request.sid)

# ── SocketIO Events ───────────────────────────────────────────────────────────
@socketio.on('create')
def create(data=None):
    room = new_room()
    rooms[room] = {'engine': GameEngine(), 'owner': request.sid, 'recorded': False}
    join_room(room)
    emit('created', room)
    emit('state', rooms[room]['engine'].state(), to=room)

@socketio.on('move')
def move(data):
    room_data = owned_room(data)
    if not room_data:
        emit('invalid', {'error': 'unknown_room'}); return
    room = data['room']
    engine = room_data['engine']
    result = engine.apply_move(_parse_position(data.get('position')))
    if not result.accepted:
        emit('invalid', {'error': result.error.value, 'state': engine.state()}); return
    # state goes out before recording so a slow or failing save cannot hold it back
    emit('state', engine.state(), to=room)
    if result.summary:
        finish_game(room, room_data, result.summary)

@socketio.on('reset')
def reset(data):
    room_data = owned_room(data)
    if not room_data:
        emit('invalid', {'error': 'unknown_room'}); return
    room_data['engine'].reset()
    room_data['recorded'] = False
    emit('state', room_data['engine'].state(), to=data['room'])

@socketio.on('disconnect')
def disconnect(*args):
    sid = request.sid
    for room in [r for r, rd in rooms.items() if rd['owner'] == sid]:
        leave_room(room)
        del rooms[room]

# ── Startup ───────────────────────────────────────────────────────────────────
def init_db():
    with app.app_context():
        try:
            db.create_all()
            print("[db] Database synchronized")
        except SQLAlchemyError as e:
            print(f"[db] Unable to connect to the database: {e}")

init_db()

if __name__ == "__main__":
    print(f"[server] Running on port {PORT}")
    print(f"[server] Health check: http://localhost:{PORT}/health")
    socketio.run(app, host='0.0.0.0', port=PORT, debug=os.environ.get('FLASK_DEBUG') == '1')

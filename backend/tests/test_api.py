import uuid

from fastapi.testclient import TestClient
from sqlmodel import Session

from lingua import models
from lingua.config import settings
from lingua.database import engine
from lingua.main import app

client = TestClient(app)


def _register_and_login(prefix='learner'):
    username = f'{prefix}-{uuid.uuid4().hex[:8]}'
    r = client.post('/auth/register', json={'username': username, 'password': 'pw123', 'first_name': 'Ann'})
    assert r.status_code == 200
    login = client.post('/auth/login', json={'username': username, 'password': 'pw123'})
    assert login.status_code == 200
    token = login.json()['access_token']
    return r.json()['id'], {'Authorization': f'Bearer {token}'}


def _create_lesson(level=1, mode='easy'):
    with Session(engine) as s:
        lesson = models.Lesson(type=f'api-{uuid.uuid4().hex[:6]}', level=level, mode=mode, xp=40, lesson_data={'title': 'Greetings'})
        s.add(lesson)
        s.commit()
        s.refresh(lesson)
        return lesson.id


def test_register_login_and_profile():
    user_id, headers = _register_and_login()
    me = client.get('/users/me', headers=headers)
    assert me.status_code == 200
    assert me.json()['id'] == user_id
    assert me.json()['experience'] == 0

    upd = client.patch('/users/me', json={'first_name': 'Anna', 'last_name': ''}, headers=headers)
    assert upd.status_code == 200
    assert upd.json()['first_name'] == 'Anna'
    assert upd.json()['last_name'] is None


def test_register_duplicate_and_bad_login():
    username = f'dup-{uuid.uuid4().hex[:8]}'
    assert client.post('/auth/register', json={'username': username, 'password': 'a'}).status_code == 200
    assert client.post('/auth/register', json={'username': username, 'password': 'b'}).status_code == 409
    assert client.post('/auth/login', json={'username': username, 'password': 'wrong'}).status_code == 401


def test_protected_routes_reject_missing_or_bad_token():
    assert client.get('/users/me').status_code in (401, 403)
    r = client.get('/users/me', headers={'Authorization': 'Bearer invalid.token.here'})
    assert r.status_code == 401


def test_complete_lesson_returns_totals_and_lesson_board():
    lesson_id = _create_lesson()
    first_id, first_headers = _register_and_login('fast')
    second_id, second_headers = _register_and_login('slow')

    r = client.post('/lessons/complete', json={'lesson_id': lesson_id, 'completion_time': 90, 'earned_experience': 40}, headers=first_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['experience'] == 40
    assert body['earned_xp'] == 40
    assert body['completed_time'] == 90
    assert body['leaderboard']['user_position'] == 1
    assert body['leaderboard']['total_users'] == 1

    r2 = client.post('/lessons/complete', json={'lesson_id': lesson_id, 'completion_time': 150, 'earned_experience': 20}, headers=second_headers)
    assert r2.status_code == 200
    board = r2.json()['leaderboard']
    assert board['user_position'] == 2
    assert [e['user_id'] for e in board['entries']] == [first_id, second_id]
    assert board['entries'][0]['first_name'] == 'Ann'

    # repeat completion accumulates experience, result is overwritten
    r3 = client.post('/lessons/complete', json={'lesson_id': lesson_id, 'completion_time': 60, 'earned_experience': 20}, headers=second_headers)
    assert r3.json()['experience'] == 40
    assert r3.json()['leaderboard']['user_position'] == 1

    stats = client.get('/users/me/stats', headers=second_headers)
    assert stats.status_code == 200
    assert stats.json()['stats']['total_lessons'] == 1
    assert stats.json()['stats']['fastest_completion'] == '01:00'


def test_complete_lesson_validation():
    _, headers = _register_and_login()
    r = client.post('/lessons/complete', json={'lesson_id': 987654, 'completion_time': 10, 'earned_experience': 1}, headers=headers)
    assert r.status_code == 404
    r = client.post('/lessons/complete', json={'lesson_id': _create_lesson(), 'completion_time': -5, 'earned_experience': 1}, headers=headers)
    assert r.status_code == 422


def test_lesson_leaderboard_without_completion_is_404():
    lesson_id = _create_lesson()
    _, headers = _register_and_login()
    r = client.get(f'/leaderboard/lesson/{lesson_id}', headers=headers)
    assert r.status_code == 404
    assert r.json()['context']['lesson_id'] == lesson_id


def test_global_leaderboard_and_snapshots():
    _, headers = _register_and_login()
    r = client.get('/leaderboard', params={'limit': 5})
    assert r.status_code == 200
    entries = r.json()
    assert [e['position'] for e in entries] == list(range(1, len(entries) + 1))
    experiences = [e['experience'] for e in entries]
    assert experiences == sorted(experiences, reverse=True)

    assert client.get('/leaderboard', params={'limit': 0}).status_code == 400
    assert client.get('/leaderboard/extended', params={'limit': 3}).status_code == 200

    assert client.post('/admin/leaderboard/update', params={'period': 'yearly'}, headers=headers).status_code == 400
    upd = client.post('/admin/leaderboard/update', params={'period': 'daily'}, headers=headers)
    assert upd.status_code == 200
    assert upd.json()['users_count'] >= 1

    history = client.get('/leaderboard/history', params={'period': 'daily'}, headers=headers)
    assert history.status_code == 200
    assert len(history.json()) >= 1


def test_lesson_catalogue_endpoints():
    _, headers = _register_and_login()
    easy = _create_lesson(level=3, mode='easy')
    with Session(engine) as s:
        lesson_type = s.get(models.Lesson, easy).type
        s.add(models.Lesson(type=lesson_type, level=3, mode='hard', lesson_data={}))
        s.commit()

    assert lesson_type in client.get('/lessons/types').json()
    levels = client.get('/lessons', params={'type': lesson_type}).json()
    assert levels[0]['level'] == 3 and levels[0]['easy_id'] == easy

    lesson = client.get(f'/lessons/{easy}', headers=headers)
    assert lesson.status_code == 200
    assert lesson.json()['lesson_data'] == {'title': 'Greetings'}
    assert client.get('/lessons/999999', headers=headers).status_code == 404


def test_request_id_header_exists():
    r = client.get('/health')
    assert r.status_code == 200
    assert 'X-Request-ID' in r.headers
    echoed = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert echoed.headers['X-Request-ID'] == 'abc123'


def test_admin_snapshot_restricted_to_configured_users(monkeypatch):
    _, headers = _register_and_login('learner')
    _, admin_headers = _register_and_login('admin')
    admin_name = client.get('/users/me', headers=admin_headers).json()['username']
    monkeypatch.setattr(settings, 'ADMIN_USERNAMES', frozenset({admin_name}))

    denied = client.post('/admin/leaderboard/update', params={'period': 'weekly'}, headers=headers)
    assert denied.status_code == 403
    allowed = client.post('/admin/leaderboard/update', params={'period': 'weekly'}, headers=admin_headers)
    assert allowed.status_code == 200

import unittest
from unittest import mock

import requests

from movieverse.client.identity import MovieRecord
from movieverse.client.remote_store import RemoteFavoritesStore
from movieverse.errors import DuplicateError, NotFoundError, TransientStoreError, ValidationError

USER = "ann@example.com"


def fake_response(status_code, payload):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


class TestRemoteFavoritesStore(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.store = RemoteFavoritesStore("http://favorites.test/", session=self.session, timeout=3.0)

    def answer(self, status_code, payload):
        self.session.request.return_value = fake_response(status_code, payload)

    def test_add_posts_payload(self) -> None:
        self.answer(201, {"success": True, "favorite": {"movieId": "550"}})

        created = self.store.add(USER, MovieRecord("550", title="Fight Club", year="1999"))

        self.assertEqual(created, {"movieId": "550"})
        method, url = self.session.request.call_args.args
        self.assertEqual((method, url), ("POST", "http://favorites.test/favorites"))
        kwargs = self.session.request.call_args.kwargs
        self.assertEqual(kwargs["timeout"], 3.0)
        self.assertEqual(kwargs["json"]["movieId"], "550")
        self.assertEqual(kwargs["json"]["userId"], USER)

    def test_add_duplicate(self) -> None:
        self.answer(400, {"success": False, "message": "Movie already in favorites", "favorite": {"movieId": "tt0137523"}})
        with self.assertRaises(DuplicateError) as ctx:
            self.store.add(USER, {"id": 550, "title": "Fight Club"})
        self.assertEqual(ctx.exception.existing, {"movieId": "tt0137523"})

    def test_add_validation(self) -> None:
        self.answer(400, {"success": False, "message": "userId and movieId are required"})
        with self.assertRaises(ValidationError):
            self.store.add(USER, {"id": 550, "title": "Fight Club"})

    def test_transport_failure_is_transient(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransientStoreError):
            self.store.list(USER)

    def test_server_error_is_transient(self) -> None:
        self.answer(500, {"success": False, "message": "Server error fetching favorites"})
        with self.assertRaises(TransientStoreError):
            self.store.list(USER)

    def test_invalid_json_is_transient(self) -> None:
        response = fake_response(200, None)
        response.json.side_effect = ValueError("no json")
        self.session.request.return_value = response
        with self.assertRaises(TransientStoreError):
            self.store.list(USER)

    def test_list_and_check(self) -> None:
        self.answer(200, {"success": True, "favorites": [{"movieId": "550"}], "count": 1})
        self.assertEqual(self.store.list(USER), [{"movieId": "550"}])
        self.assertEqual(self.session.request.call_args.args[1], "http://favorites.test/favorites/ann%40example.com")

        self.answer(200, {"success": True, "isFavorite": False, "favorite": None})
        self.assertEqual(self.store.check(USER, "550"), (False, None))

    def test_remove(self) -> None:
        self.answer(200, {"success": True, "deleted": {"movieId": "550"}})
        self.assertEqual(self.store.remove(USER, "tmdb-550"), {"movieId": "550"})
        self.assertEqual(self.session.request.call_args.args, ("DELETE", "http://favorites.test/favorites/ann%40example.com/tmdb-550"))

        self.answer(404, {"success": False, "message": "Favorite not found"})
        with self.assertRaises(NotFoundError):
            self.store.remove(USER, "603")

    def test_identifier_is_quoted(self) -> None:
        self.answer(200, {"success": True, "deleted": {}})
        self.store.remove(USER, "custom-a/b-2010")
        self.assertTrue(self.session.request.call_args.args[1].endswith("/custom-a%2Fb-2010"))

    def test_maintenance_calls(self) -> None:
        self.answer(200, {"success": True, "deletedCount": 4})
        self.assertEqual(self.store.clear(USER), 4)

        self.answer(200, {"success": True, "updatedCount": 1, "totalChecked": 3})
        self.assertEqual(self.store.update_posters(USER), (1, 3))

        self.answer(200, {"success": True, "removedCount": 0, "totalChecked": 3})
        self.assertEqual(self.store.cleanup_duplicates(USER), (0, 3))


if __name__ == "__main__":
    unittest.main()

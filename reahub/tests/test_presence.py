import json
import unittest

from reahub.db import InMemoryDbClient, PresenceRecord
from reahub.presence import (
    LocationThrottle,
    decode_location,
    encode_location,
    list_locations,
    update_location,
)
from reahub.types import AppRole

NOW = 1_700_000_000.0


class PresenceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.throttle = LocationThrottle(interval_seconds=10.0)
        self.driver = self.db.create_profile("driver@reahub.test", "Driver", [AppRole.OPERATIONS])
        self.designer = self.db.create_profile("design@reahub.test", "Des", [AppRole.DESIGNER])

    def test_encode_location(self):
        payload = json.loads(encode_location(25.2, 55.3, NOW))
        self.assertEqual(payload["lat"], 25.2)
        self.assertEqual(payload["lng"], 55.3)
        self.assertEqual(payload["updated_at"], "2023-11-14T22:13:20+00:00")

    def test_encode_rejects_out_of_range(self):
        with self.assertRaises(ValueError):
            encode_location(91.0, 0.0)
        with self.assertRaises(ValueError):
            encode_location(0.0, -181.0)

    def test_decode_skips_free_text(self):
        self.assertIsNone(decode_location(PresenceRecord(user_id="u", custom_message="At lunch")))
        self.assertIsNone(decode_location(PresenceRecord(user_id="u", custom_message='{"lat": 1}')))
        self.assertIsNone(decode_location(PresenceRecord(user_id="u")))

    def test_update_is_throttled_per_user(self):
        self.assertTrue(update_location(self.db, self.throttle, self.driver.id, 25.0, 55.0, now=NOW))
        self.assertFalse(
            update_location(self.db, self.throttle, self.driver.id, 26.0, 56.0, now=NOW + 5)
        )
        self.assertTrue(
            update_location(self.db, self.throttle, self.designer.id, 1.0, 2.0, now=NOW + 5)
        )
        self.assertTrue(
            update_location(self.db, self.throttle, self.driver.id, 27.0, 57.0, now=NOW + 10)
        )

        presence = self.db.get_presence(self.driver.id)
        self.assertEqual(presence.status, "online")
        self.assertEqual(presence.last_active, NOW + 10)
        self.assertEqual(decode_location(presence).lat, 27.0)

    def test_list_locations_filters_by_role(self):
        update_location(self.db, self.throttle, self.driver.id, 25.0, 55.0, now=NOW)
        update_location(self.db, self.throttle, self.designer.id, 1.0, 2.0, now=NOW)

        locations = list_locations(self.db)
        self.assertEqual([loc.user_id for loc in locations], [self.driver.id])
        self.assertEqual(len(list_locations(self.db, role=None)), 2)

    def test_list_locations_skips_status_messages(self):
        self.db.upsert_presence(self.driver.id, status="busy", custom_message="On site", now=NOW)
        self.assertEqual(list_locations(self.db), [])


if __name__ == "__main__":
    unittest.main()

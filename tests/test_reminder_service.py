import unittest
from dataclasses import replace
from datetime import datetime, timedelta

from fakes import FakeLoop, RecordingDisplay
from wastereminder.collectors import CalendarFeedError
from wastereminder.config import CalendarConfig, WasteReminderConfig
from wastereminder.display import DisplayPayload
from wastereminder.rules import CalendarEvent
from wastereminder.services import WasteReminderService
from wastereminder.services.reminder_service import ServiceDependencies

START = datetime(2024, 5, 6, 18, 0)


class StubSubscriber:
    instances = []

    def __init__(self, config, on_connected, on_message, on_error):
        self.config = config
        self.on_connected = on_connected
        self.on_message = on_message
        self.on_error = on_error
        self.connected = False
        self.closed = False
        StubSubscriber.instances.append(self)

    def connect(self):
        self.connected = True

    def close(self):
        self.closed = True


class StubFeed:
    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error
        self.calls = 0
        self.closed = False

    def fetch_events(self):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.events)

    def close(self):
        self.closed = True


class ServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        StubSubscriber.instances = []
        self.loop = FakeLoop(start=START)
        self.display = RecordingDisplay()
        self.errors = []

    def make_service(self, config=None, feed=None):
        config = config or WasteReminderConfig()
        deps = ServiceDependencies(
            display=self.display,
            calendar_feed=feed,
            subscriber_factory=StubSubscriber,
            on_error=self.errors.append,
        )
        return WasteReminderService(config, deps, self.loop, clock=self.loop.now)


class SetWasteTypeTests(ServiceTestCase):
    def test_sets_state_renders_and_arms_hide_timer(self):
        service = self.make_service()
        service.set_waste_type("wasteYellow")
        self.assertEqual(service.state.current, "wasteYellow")
        self.assertEqual(self.display.last, DisplayPayload("wasteYellow", "images/yellow.png"))
        self.assertEqual(service.state.hide_at, datetime(2024, 5, 7, 10, 0))
        self.assertEqual(len(self.loop.pending), 1)

    def test_repeated_set_keeps_exactly_one_timer(self):
        service = self.make_service()
        service.set_waste_type("wasteBlue")
        service.set_waste_type("wasteBlue")
        self.assertEqual(service.state.current, "wasteBlue")
        self.assertEqual(len(self.loop.pending), 1)

    def test_auto_hide_turns_reminder_off(self):
        service = self.make_service()
        service.set_waste_type("wasteBio")
        self.loop.advance(timedelta(hours=16).total_seconds())
        self.assertEqual(service.state.current, "off")
        self.assertIsNone(self.display.last)
        self.assertEqual(self.loop.pending, [])

    def test_latest_set_wins_before_auto_hide(self):
        service = self.make_service()
        service.set_waste_type("wasteBio")
        self.loop.advance(3600)
        service.set_waste_type("wasteBlack")
        self.loop.advance(timedelta(hours=15).total_seconds())
        self.assertEqual(service.state.current, "off")
        self.assertEqual([u[0] for u in self.display.updates][-1], None)

    def test_off_cancels_timer_and_clears_display(self):
        service = self.make_service()
        service.set_waste_type("wasteYellow")
        service.set_waste_type("off")
        self.assertEqual(service.state.current, "off")
        self.assertIsNone(self.display.last)
        self.assertEqual(self.loop.pending, [])

    def test_unknown_type_renders_nothing_without_error(self):
        service = self.make_service()
        service.set_waste_type("wasteGlass")
        self.assertEqual(service.state.current, "wasteGlass")
        self.assertIsNone(self.display.last)
        self.assertEqual(self.errors, [])

    def test_disabled_auto_hide_arms_nothing(self):
        service = self.make_service(replace(WasteReminderConfig(), auto_hide_next_day_at=None))
        service.set_waste_type("wasteYellow")
        self.assertEqual(self.loop.pending, [])

    def test_invalid_hide_time_is_reported(self):
        service = self.make_service(replace(WasteReminderConfig(), auto_hide_next_day_at="25:99"))
        with self.assertLogs("wastereminder.services.reminder_service", level="ERROR"):
            service.set_waste_type("wasteYellow")
        self.assertEqual(service.state.current, "wasteYellow")
        self.assertIsNotNone(self.display.last)
        self.assertEqual(self.loop.pending, [])
        self.assertEqual(len(self.errors), 1)
        self.assertIn("25:99", self.errors[0])

    def test_label_included_with_show_text(self):
        config = WasteReminderConfig()
        config.display.show_text = True
        service = self.make_service(config)
        service.set_waste_type("wasteYellow")
        self.assertEqual(self.display.last.label, "Gelbe Tonne")


class CalendarIngestTests(ServiceTestCase):
    def calendar_config(self, **calendar):
        return WasteReminderConfig(data_source="calendar", calendar=CalendarConfig(**calendar))

    def test_due_calendar_event_shows_icon(self):
        service = self.make_service(self.calendar_config())
        events = [{"title": "Gelbe Tonne", "startDate": START + timedelta(hours=2)}]
        events = [CalendarEvent(e["title"], e["startDate"]) for e in events]
        self.assertEqual(service.process_calendar_events(events), "wasteYellow")
        self.assertEqual(self.display.last.to_dict(), {"icon": "images/yellow.png"})
        self.assertEqual(service.state.hide_at, datetime(2024, 5, 7, 10, 0))

    def test_accepts_raw_host_records(self):
        service = self.make_service(self.calendar_config())
        start_ms = int((START + timedelta(hours=3)).timestamp() * 1000)
        service.on_external_event("CALENDAR_EVENTS", [{"title": "Papier", "startDate": start_ms}])
        self.assertEqual(service.state.current, "wasteBlue")

    def test_events_outside_window_are_ignored(self):
        service = self.make_service(self.calendar_config())
        events = [
            CalendarEvent("Papier", START - timedelta(hours=1)),
            CalendarEvent("Biotonne", START + timedelta(hours=30)),
        ]
        self.assertIsNone(service.process_calendar_events(events))
        self.assertIsNone(service.state.current)
        self.assertEqual(self.display.updates, [])

    def test_disabled_calendar_ignores_events(self):
        service = self.make_service(self.calendar_config(enabled=False))
        events = [CalendarEvent("Papier", START + timedelta(hours=1))]
        self.assertIsNone(service.process_calendar_events(events))
        self.assertIsNone(service.state.current)

    def test_init_polls_feed_immediately_and_every_interval(self):
        feed = StubFeed(events=[CalendarEvent("Biotonne", START + timedelta(hours=5))])
        service = self.make_service(self.calendar_config(feed_url="http://calendar.local/events"), feed)
        service.init()
        self.assertEqual(feed.calls, 1)
        self.assertEqual(service.state.current, "wasteBio")
        self.assertEqual(StubSubscriber.instances, [])

        self.loop.advance(timedelta(minutes=30).total_seconds())
        self.assertEqual(feed.calls, 2)

    def test_feed_error_is_reported(self):
        feed = StubFeed(error=CalendarFeedError("calendar feed request failed: 503"))
        service = self.make_service(self.calendar_config(feed_url="http://calendar.local/events"), feed)
        with self.assertLogs("wastereminder.services.reminder_service", level="ERROR"):
            service.init()
        self.assertEqual(self.errors, ["calendar feed request failed: 503"])
        self.assertIsNone(service.state.current)

    def test_unexpected_feed_failure_is_reported(self):
        feed = StubFeed(error=RuntimeError("socket exploded"))
        service = self.make_service(self.calendar_config(feed_url="http://calendar.local/events"), feed)
        with self.assertLogs("wastereminder.services.reminder_service", level="ERROR"):
            service.init()
        self.assertEqual(len(self.errors), 1)
        self.assertIn("socket exploded", self.errors[0])
        self.assertTrue(service.running)

    def test_shutdown_cancels_poll_timer_and_closes_feed(self):
        feed = StubFeed()
        service = self.make_service(self.calendar_config(feed_url="http://calendar.local/events"), feed)
        service.init()
        service.set_waste_type("wasteBio")
        service.shutdown()
        self.assertEqual(self.loop.pending, [])
        self.assertTrue(feed.closed)
        self.assertFalse(service.running)
        self.loop.advance(timedelta(days=2).total_seconds())
        self.assertEqual(feed.calls, 1)


class MqttIngestTests(ServiceTestCase):
    def test_init_connects_subscriber_for_mqtt_source(self):
        service = self.make_service()
        service.init()
        self.assertEqual(len(StubSubscriber.instances), 1)
        self.assertTrue(StubSubscriber.instances[0].connected)
        self.assertEqual(self.loop.pending, [])

    def test_message_sets_waste_type(self):
        service = self.make_service()
        service.init()
        StubSubscriber.instances[0].on_message("mqtt/0/waste/state", "wasteBlack")
        self.assertEqual(service.state.current, "wasteBlack")
        self.assertEqual(len(self.loop.pending), 1)

    def test_off_message_clears_display_and_cancels_timer(self):
        service = self.make_service()
        service.init()
        subscriber = StubSubscriber.instances[0]
        subscriber.on_message("mqtt/0/waste/state", "wasteYellow")
        subscriber.on_message("mqtt/0/waste/state", "off")
        self.assertEqual(service.state.current, "off")
        self.assertIsNone(self.display.last)
        self.assertEqual(self.loop.pending, [])

    def test_errors_surface_through_error_channel(self):
        service = self.make_service()
        service.init()
        with self.assertLogs("wastereminder.services.reminder_service", level="ERROR"):
            StubSubscriber.instances[0].on_error("connection refused")
        self.assertEqual(self.errors, ["MQTT Error: connection refused"])
        self.assertIsNone(service.state.current)

    def test_both_sources_start_together(self):
        feed = StubFeed()
        config = WasteReminderConfig(
            data_source="both",
            calendar=CalendarConfig(feed_url="http://calendar.local/events"),
        )
        service = self.make_service(config, feed)
        service.init()
        self.assertEqual(len(StubSubscriber.instances), 1)
        self.assertEqual(feed.calls, 1)

    def test_shutdown_closes_subscriber_and_is_idempotent(self):
        service = self.make_service()
        service.init()
        service.set_waste_type("wasteYellow")
        service.shutdown()
        service.shutdown()
        self.assertTrue(StubSubscriber.instances[0].closed)
        self.assertEqual(self.loop.pending, [])

    def test_messages_after_shutdown_are_ignored(self):
        service = self.make_service()
        service.init()
        subscriber = StubSubscriber.instances[0]
        service.shutdown()
        subscriber.on_message("mqtt/0/waste/state", "wasteYellow")
        service.on_external_event("CALENDAR_EVENTS", [CalendarEvent("Papier", START + timedelta(hours=1))])
        self.assertIsNone(service.state.current)
        self.assertEqual(self.loop.pending, [])
        self.assertEqual(self.display.updates, [])

    def test_state_notification_without_payload_is_ignored(self):
        service = self.make_service()
        service.set_waste_type("wasteBio")
        with self.assertLogs("wastereminder.services.reminder_service", level="WARNING"):
            service.on_external_event("MQTT_STATE_CHANGED", None)
        self.assertEqual(service.state.current, "wasteBio")

    def test_named_notifications_are_dispatched(self):
        service = self.make_service()
        service.on_external_event("MQTT_CONNECTED", True)
        service.on_external_event("MQTT_STATE_CHANGED", "wasteBio")
        service.on_external_event("SOMETHING_ELSE", None)
        self.assertEqual(service.state.current, "wasteBio")


if __name__ == "__main__":
    unittest.main()

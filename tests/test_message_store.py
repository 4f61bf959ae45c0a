from unittest import mock

from pairchat.errors import AlreadyDeletedError, ForbiddenError, NotFoundError, ValidationError
from pairchat.services.message_store import MessageStore

from tests.support import DatabaseTestCase


class SendTests(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.alice = await self.make_user("Alice")
        self.bob = await self.make_user("Bob")

    async def test_send_returns_canonical_record(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="hi")
        self.assertIsNotNone(message.id)
        self.assertIsNotNone(message.created_at)
        self.assertEqual(message.sender_id, self.alice.id)
        self.assertEqual(message.receiver_id, self.bob.id)
        self.assertEqual(message.text, "hi")
        self.assertFalse(message.read)
        self.assertFalse(message.pinned)
        self.assertFalse(message.deleted)
        self.assertFalse(message.edited)

    async def test_send_requires_text_or_image(self):
        with self.assertRaises(ValidationError):
            await self.store.send(self.alice.id, self.bob.id)
        with self.assertRaises(ValidationError):
            await self.store.send(self.alice.id, self.bob.id, text="   ", image="")
        self.assertEqual(await self.store.list_conversation(self.alice.id, self.bob.id), [])

    async def test_send_to_self_is_rejected(self):
        with self.assertRaises(ValidationError):
            await self.store.send(self.alice.id, self.alice.id, text="note to self")

    async def test_send_to_unknown_or_deleted_user(self):
        import uuid

        with self.assertRaises(NotFoundError):
            await self.store.send(self.alice.id, uuid.uuid4(), text="hello?")

        gone = await self.make_user("Gone", deleted=True)
        with self.assertRaises(NotFoundError):
            await self.store.send(self.alice.id, gone.id, text="hello?")

    async def test_image_url_is_stored_as_reference(self):
        message = await self.store.send(self.alice.id, self.bob.id, image="https://cdn.example.com/cat.png")
        self.assertIsNone(message.text)
        self.assertEqual(message.image, "https://cdn.example.com/cat.png")

    async def test_raw_image_needs_configured_upload(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.store.send(self.alice.id, self.bob.id, image="data:image/png;base64,AAAA")
        self.assertEqual(ctx.exception.message, "Image uploads are not configured")

    async def test_reply_must_stay_in_pair(self):
        carol = await self.make_user("Carol")
        original = await self.store.send(self.alice.id, self.bob.id, text="question")

        reply = await self.store.send(self.bob.id, self.alice.id, text="answer", reply_to=original.id)
        self.assertEqual(reply.reply_to_id, original.id)

        with self.assertRaises(ValidationError):
            await self.store.send(carol.id, self.alice.id, text="hijack", reply_to=original.id)
        with self.assertRaises(NotFoundError):
            await self.store.send(self.bob.id, self.alice.id, text="answer", reply_to=9999)


class ConversationTests(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.alice = await self.make_user("Alice")
        self.bob = await self.make_user("Bob")
        self.carol = await self.make_user("Carol")

    async def test_listing_is_ordered_and_keeps_deleted_placeholders(self):
        first = await self.store.send(self.alice.id, self.bob.id, text="one")
        second = await self.store.send(self.bob.id, self.alice.id, text="two")
        await self.store.send(self.alice.id, self.carol.id, text="elsewhere")
        third = await self.store.send(self.alice.id, self.bob.id, image="https://cdn.example.com/x.png")
        await self.store.delete(second.id, self.bob.id)

        messages = await self.store.list_conversation(self.bob.id, self.alice.id)
        self.assertEqual([m.id for m in messages], [first.id, second.id, third.id])
        placeholder = messages[1]
        self.assertTrue(placeholder.deleted)
        self.assertIsNone(placeholder.text)
        self.assertIsNone(placeholder.image)

    async def test_mark_read_is_idempotent(self):
        a = await self.store.send(self.alice.id, self.bob.id, text="a")
        b = await self.store.send(self.alice.id, self.bob.id, text="b")
        await self.store.send(self.bob.id, self.alice.id, text="not mine to read")

        self.assertEqual(sorted(await self.store.mark_read(self.bob.id, self.alice.id)), sorted([a.id, b.id]))
        self.assertEqual(await self.store.mark_read(self.bob.id, self.alice.id), [])
        self.assertEqual(await self.store.unread_count(self.alice.id), 1)

    async def test_message_after_mark_read_stays_unread(self):
        await self.store.send(self.alice.id, self.bob.id, text="early")
        await self.store.mark_read(self.bob.id, self.alice.id)
        late = await self.store.send(self.alice.id, self.bob.id, text="late")

        self.assertEqual(await self.store.unread_count(self.bob.id), 1)
        self.assertEqual(await self.store.mark_read(self.bob.id, self.alice.id), [late.id])

    async def test_unread_count_is_sum_over_counterparts(self):
        await self.store.send(self.alice.id, self.bob.id, text="1")
        await self.store.send(self.alice.id, self.bob.id, text="2")
        await self.store.send(self.carol.id, self.bob.id, text="3")
        await self.store.send(self.bob.id, self.alice.id, text="4")
        self.assertEqual(await self.store.unread_count(self.bob.id), 3)

        await self.store.mark_read(self.bob.id, self.carol.id)
        per_sender = await self.store.unread_by_sender(self.bob.id)
        self.assertEqual(per_sender, {self.alice.id: 2})
        self.assertEqual(await self.store.unread_count(self.bob.id), sum(per_sender.values()))

    async def test_pin_and_unpin(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="remember this")

        pinned = await self.store.pin(message.id, self.bob.id)
        self.assertTrue(pinned.pinned)
        self.assertEqual(pinned.pinned_by, self.bob.id)
        self.assertIsNotNone(pinned.pinned_at)
        self.assertEqual([m.id for m in await self.store.list_pinned(self.alice.id, self.bob.id)], [message.id])

        unpinned = await self.store.unpin(message.id, self.alice.id)
        self.assertFalse(unpinned.pinned)
        self.assertIsNone(unpinned.pinned_by)
        self.assertIsNone(unpinned.pinned_at)
        self.assertEqual(await self.store.list_pinned(self.alice.id, self.bob.id), [])

    async def test_pin_rules(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="private")
        with self.assertRaises(NotFoundError):
            await self.store.pin(12345, self.alice.id)
        with self.assertRaises(ForbiddenError):
            await self.store.pin(message.id, self.carol.id)
        with self.assertRaises(ForbiddenError):
            await self.store.unpin(message.id, self.carol.id)

        await self.store.delete(message.id, self.alice.id)
        with self.assertRaises(AlreadyDeletedError):
            await self.store.pin(message.id, self.bob.id)
        with self.assertRaises(AlreadyDeletedError):
            await self.store.unpin(message.id, self.bob.id)

    async def test_deleting_pinned_message_clears_pin(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="pin me")
        await self.store.pin(message.id, self.bob.id)

        deleted, changed = await self.store.delete(message.id, self.alice.id)
        self.assertTrue(changed)
        self.assertTrue(deleted.deleted)
        self.assertIsNotNone(deleted.deleted_at)
        self.assertFalse(deleted.pinned)
        self.assertIsNone(deleted.pinned_by)
        self.assertIsNone(deleted.pinned_at)
        self.assertEqual(await self.store.list_pinned(self.alice.id, self.bob.id), [])

    async def test_only_author_deletes(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="mine")
        with self.assertRaises(ForbiddenError):
            await self.store.delete(message.id, self.bob.id)
        with self.assertRaises(NotFoundError):
            await self.store.delete(4242, self.alice.id)

        first, _ = await self.store.delete(message.id, self.alice.id)
        deleted_at = first.deleted_at
        again, changed = await self.store.delete(message.id, self.alice.id)
        self.assertFalse(changed)
        self.assertTrue(again.deleted)
        self.assertEqual(again.deleted_at, deleted_at)

    async def test_edit_sets_edited_permanently(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="helo")

        edited = await self.store.edit(message.id, self.alice.id, "hello")
        self.assertEqual(edited.text, "hello")
        self.assertTrue(edited.edited)
        self.assertIsNotNone(edited.edited_at)

        edited = await self.store.edit(message.id, self.alice.id, "hello!")
        self.assertEqual(edited.text, "hello!")
        self.assertTrue(edited.edited)

    async def test_edit_by_non_owner_changes_nothing(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="original")

        with self.assertRaises(ForbiddenError):
            await self.store.edit(message.id, self.bob.id, "tampered")

        current = await self.store.get(message.id)
        self.assertEqual(current.text, "original")
        self.assertFalse(current.edited)
        self.assertIsNone(current.edited_at)

    async def test_edit_rules(self):
        text = await self.store.send(self.alice.id, self.bob.id, text="text")
        image = await self.store.send(self.alice.id, self.bob.id, image="https://cdn.example.com/y.png")

        with self.assertRaises(ValidationError):
            await self.store.edit(text.id, self.alice.id, "  ")
        with self.assertRaises(ValidationError):
            await self.store.edit(image.id, self.alice.id, "caption")

        await self.store.delete(text.id, self.alice.id)
        with self.assertRaises(AlreadyDeletedError):
            await self.store.edit(text.id, self.alice.id, "too late")

    def delete_right_after_load(self, author_id):
        """Have a second session delete the message between the store's read and its update."""
        load = self.store._load
        done = []

        async def load_then_delete(message_id):
            message = await load(message_id)
            if not done:
                done.append(message_id)
                async with self.sessionmaker() as other:
                    await MessageStore(other, self.store.media).delete(message_id, author_id)
            return message

        return mock.patch.object(self.store, "_load", load_then_delete)

    async def test_pin_losing_race_to_delete(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="racy")
        await self.store.pin(message.id, self.bob.id)

        with self.delete_right_after_load(self.alice.id):
            with self.assertRaises(AlreadyDeletedError):
                await self.store.pin(message.id, self.alice.id)

        current = await self.store.get(message.id)
        self.assertTrue(current.deleted)
        self.assertFalse(current.pinned)
        self.assertIsNone(current.pinned_by)
        self.assertIsNone(current.pinned_at)

    async def test_edit_losing_race_to_delete(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="racy")

        with self.delete_right_after_load(self.alice.id):
            with self.assertRaises(AlreadyDeletedError):
                await self.store.edit(message.id, self.alice.id, "rewritten")

        current = await self.store.get(message.id)
        self.assertTrue(current.deleted)
        self.assertIsNone(current.text)
        self.assertFalse(current.edited)

    async def test_pair_never_changes(self):
        message = await self.store.send(self.alice.id, self.bob.id, text="x")
        await self.store.pin(message.id, self.bob.id)
        await self.store.unpin(message.id, self.bob.id)
        await self.store.edit(message.id, self.alice.id, "y")
        final, _ = await self.store.delete(message.id, self.alice.id)
        self.assertEqual((final.sender_id, final.receiver_id), (self.alice.id, self.bob.id))

    async def test_interleaved_operations_are_reflected_in_order(self):
        m1 = await self.store.send(self.alice.id, self.bob.id, text="m1")
        m2 = await self.store.send(self.bob.id, self.alice.id, text="m2")
        await self.store.pin(m1.id, self.bob.id)
        m3 = await self.store.send(self.alice.id, self.bob.id, text="m3")
        await self.store.edit(m2.id, self.bob.id, "m2 edited")
        await self.store.delete(m3.id, self.alice.id)
        await self.store.pin(m2.id, self.alice.id)
        await self.store.unpin(m1.id, self.alice.id)

        messages = await self.store.list_conversation(self.alice.id, self.bob.id)
        self.assertEqual([m.id for m in messages], [m1.id, m2.id, m3.id])
        by_id = {m.id: m for m in messages}
        self.assertEqual((by_id[m1.id].text, by_id[m1.id].pinned), ("m1", False))
        self.assertEqual((by_id[m2.id].text, by_id[m2.id].edited, by_id[m2.id].pinned), ("m2 edited", True, True))
        self.assertEqual((by_id[m3.id].text, by_id[m3.id].deleted), (None, True))


class CounterpartTests(DatabaseTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.u1 = await self.make_user("Ursula One", joined_minutes=0)
        self.u2 = await self.make_user("Umberto Two", joined_minutes=1)
        self.u3 = await self.make_user("Uma Three", joined_minutes=2)
        self.gone = await self.make_user("Ulrich Gone", joined_minutes=3, deleted=True)

    async def test_latest_message_and_unread_per_counterpart(self):
        await self.store.send(self.u1.id, self.u2.id, text="hi")
        await self.store.send(self.u2.id, self.u1.id, text="hey")

        summaries = await self.store.list_counterparts(self.u1.id)
        u2 = next(s for s in summaries if s.user.id == self.u2.id)
        self.assertEqual(u2.unread_count, 1)
        self.assertEqual(u2.last_message.text, "hey")
        self.assertEqual(u2.last_message_time, u2.last_message.created_at)

    async def test_ordering_and_exclusions(self):
        await self.store.send(self.u2.id, self.u1.id, text="recent")

        summaries = await self.store.list_counterparts(self.u1.id)
        self.assertEqual([s.user.id for s in summaries], [self.u2.id, self.u3.id])
        # Never messaged: sorted by join time, no last message
        self.assertIsNone(summaries[1].last_message)
        self.assertEqual(summaries[1].last_message_time, self.u3.created_at)

    async def test_search_is_case_insensitive_and_counts_unread(self):
        await self.store.send(self.u2.id, self.u1.id, text="ping")
        await self.store.send(self.u2.id, self.u1.id, text="ping again")

        results = await self.store.search_counterparts(self.u1.id, "U")
        names = [user.full_name for user, _ in results]
        self.assertEqual(names, ["Uma Three", "Umberto Two"])
        self.assertEqual(dict((user.id, unread) for user, unread in results)[self.u2.id], 2)

        results = await self.store.search_counterparts(self.u1.id, "two")
        self.assertEqual([user.id for user, _ in results], [self.u2.id])

    async def test_search_requires_query(self):
        with self.assertRaises(ValidationError):
            await self.store.search_counterparts(self.u1.id, "  ")

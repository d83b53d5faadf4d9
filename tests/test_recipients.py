from ticket_queue.services.notifications import RecipientStore


def test_seed_recipients_until_first_write(recipient_store):
    assert recipient_store.get_emails() == ["kitchen@snack.test"]
    assert [a.phone_number for a in recipient_store.get_whatsapp_admins()] == ["+15550001111"]
    assert not recipient_store.path.exists()


def test_emails_are_normalised_and_unique(recipient_store):
    assert recipient_store.add_email("  Boss@Snack.TEST ") is True
    assert recipient_store.add_email("boss@snack.test") is False
    assert recipient_store.get_emails() == ["kitchen@snack.test", "boss@snack.test"]

    assert recipient_store.remove_email("BOSS@snack.test") is True
    assert recipient_store.remove_email("boss@snack.test") is False


def test_changes_persist_for_other_instances(recipient_store, settings):
    recipient_store.add_whatsapp_admin("+15557778888", "Night shift")

    reopened = RecipientStore(settings.recipients_path, seed_emails=["other@x.test"])

    assert reopened.get_emails() == ["kitchen@snack.test"]
    assert [(a.phone_number, a.name) for a in reopened.get_whatsapp_admins()] == [
        ("+15550001111", None),
        ("+15557778888", "Night shift"),
    ]


def test_unreadable_document_falls_back_to_seed(recipient_store):
    recipient_store.path.parent.mkdir(parents=True, exist_ok=True)
    recipient_store.path.write_text("[broken", encoding="utf-8")

    assert recipient_store.get_emails() == ["kitchen@snack.test"]


def test_mixed_case_seed_emails_are_normalised(tmp_path):
    store = RecipientStore(tmp_path / "recipients.json", seed_emails=["Kitchen@Snack.test", "kitchen@snack.test "])

    assert store.get_emails() == ["kitchen@snack.test"]
    assert store.add_email("KITCHEN@snack.test") is False
    assert store.remove_email("Kitchen@Snack.test") is True
    assert store.get_emails() == []

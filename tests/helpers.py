def upsert_payload(*entries):
    return {"event": "messages.upsert", "instance": "relay", "data": {"messages": list(entries)}}


def upsert_entry(remote_jid="5511999@s.whatsapp.net", text="oi", from_me=False, message_id="ABC123"):
    return {
        "key": {"remoteJid": remote_jid, "fromMe": from_me, "id": message_id},
        "message": {"conversation": text},
        "messageType": "conversation",
    }

# Inbound events (client -> server)
JOIN_CALL = "join-call"  # args: room_key
SIGNAL = "signal"  # args: target_connection_id, payload
CHAT_MESSAGE = "chat-message"  # args: body, sender_name

# Outbound events (server -> client)
CONNECTED = "connected"  # args: connection_id (transport handshake, sent once on accept)
USER_JOINED = "user-joined"  # args: new_connection_id, member_list
USER_LEFT = "user-left"  # args: leaving_connection_id
# SIGNAL and CHAT_MESSAGE are reused outbound:
# signal -> sender_connection_id, payload
# chat-message -> body, sender_name, sender_connection_id

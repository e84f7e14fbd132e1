"""GraphQL documents issued against the hosted chat schema."""

from __future__ import annotations

GET_USER = """
query GetUser($email: String!) {
  users(where: {email: {_eq: $email}}) {
    id
    name
    email
    password_hash
  }
}
"""

REGISTER_USER = """
mutation RegisterUser($name: String!, $email: String!, $password_hash: String!) {
  insert_users_one(object: {name: $name, email: $email, password_hash: $password_hash}) {
    id
    name
    email
  }
}
"""

GET_CHAT_ROOMS = """
query GetChatRooms {
  chat_rooms {
    id
    name
    created_by
    creator {
      id
      name
    }
  }
}
"""

ADD_CHAT_ROOM = """
mutation AddChatRoom($name: String!, $created_by: uuid!) {
  insert_chat_rooms(objects: {name: $name, created_by: $created_by}) {
    affected_rows
    returning {
      id
      name
      created_by
    }
  }
}
"""

GET_CHATS_BY_CLASS = """
query GetChatsByClass($grpid: uuid!) {
  chat_rooms_by_pk(id: $grpid) {
    id
    name
    created_by
    messages(order_by: {created_at: asc}) {
      id
      content
      user_id
      chat_room_id
      created_at
      user {
        id
        name
      }
    }
  }
}
"""

INSERT_MESSAGE = """
mutation InsertMessage($content: String!, $user_id: uuid!, $chat_room_id: uuid!) {
  insert_messages(objects: {content: $content, user_id: $user_id, chat_room_id: $chat_room_id}) {
    returning {
      id
      content
      user_id
      chat_room_id
      created_at
      user {
        id
        name
      }
    }
  }
}
"""

# Room-less feed shown to every signed-in user.
GET_MESSAGES = """
query GetMessages {
  messages(order_by: {created_at: asc}) {
    id
    content
    user_id
    chat_room_id
    created_at
    user {
      id
      name
    }
  }
}
"""

ADD_MESSAGE = """
mutation AddMessage($content: String!, $user_id: uuid!) {
  insert_messages_one(object: {content: $content, user_id: $user_id}) {
    id
    content
    user_id
    chat_room_id
    created_at
    user {
      id
      name
    }
  }
}
"""

FEED_MESSAGES = """
subscription FeedMessages {
  messages(order_by: {created_at: asc}) {
    id
    content
    user_id
    chat_room_id
    created_at
    user {
      id
      name
    }
  }
}
"""

# Live query; the backend pushes the whole ordered list on every change.
ROOM_MESSAGES = """
subscription RoomMessages($chat_room_id: uuid!) {
  messages(where: {chat_room_id: {_eq: $chat_room_id}}, order_by: {created_at: asc}) {
    id
    content
    user_id
    chat_room_id
    created_at
    user {
      id
      name
    }
  }
}
"""

__all__ = [
    "ADD_CHAT_ROOM",
    "ADD_MESSAGE",
    "FEED_MESSAGES",
    "GET_CHATS_BY_CLASS",
    "GET_CHAT_ROOMS",
    "GET_MESSAGES",
    "GET_USER",
    "INSERT_MESSAGE",
    "REGISTER_USER",
    "ROOM_MESSAGES",
]

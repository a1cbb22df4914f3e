"""Booking chat - threads, messages and their enum types

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')

    # Bookings are owned by the booking module; only the columns chat reads
    op.execute("""
        CREATE TABLE IF NOT EXISTS bookings (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id UUID NOT NULL,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_bookings_user_id ON bookings (user_id);")

    op.execute("""
        DO $$
        BEGIN
          IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'chatthreadstatus') THEN
            CREATE TYPE chatthreadstatus AS ENUM ('open', 'closing', 'closed');
          END IF;
          IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'chatmessagetype') THEN
            CREATE TYPE chatmessagetype AS ENUM ('text', 'image', 'location');
          END IF;
        END $$;
    """)

    op.execute("""
        CREATE TABLE chat_threads (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          booking_id UUID NOT NULL UNIQUE REFERENCES bookings(id) ON DELETE CASCADE,
          client_id UUID NOT NULL,
          admin_id UUID,
          status chatthreadstatus NOT NULL DEFAULT 'open',
          opened_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          closing_at TIMESTAMPTZ,
          closed_at TIMESTAMPTZ,
          closed_by UUID,
          purge_attempts INTEGER NOT NULL DEFAULT 0,
          last_purge_error TEXT,
          created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
          updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_chat_threads_status ON chat_threads (status);")
    op.execute("CREATE INDEX ix_chat_threads_client_id ON chat_threads (client_id);")

    op.execute("""
        CREATE TABLE chat_messages (
          id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
          thread_id UUID NOT NULL REFERENCES chat_threads(id) ON DELETE CASCADE,
          sender_id UUID NOT NULL,
          type chatmessagetype NOT NULL,
          text TEXT,
          media_path VARCHAR(2048),
          latitude NUMERIC(10, 7),
          longitude NUMERIC(10, 7),
          created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE INDEX ix_chat_messages_thread_id_created_at
          ON chat_messages (thread_id, created_at);
    """)

    # Live rows carry exactly the content group of their type; redacted rows carry none
    op.execute("""
        ALTER TABLE chat_messages ADD CONSTRAINT ck_chat_messages_content_by_type CHECK (
          (text IS NULL AND media_path IS NULL AND latitude IS NULL AND longitude IS NULL)
          OR (type = 'text' AND text IS NOT NULL AND media_path IS NULL
              AND latitude IS NULL AND longitude IS NULL)
          OR (type = 'image' AND media_path IS NOT NULL AND text IS NULL
              AND latitude IS NULL AND longitude IS NULL)
          OR (type = 'location' AND latitude IS NOT NULL AND longitude IS NOT NULL
              AND text IS NULL AND media_path IS NULL)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS chat_messages;")
    op.execute("DROP TABLE IF EXISTS chat_threads;")
    op.execute("DROP TYPE IF EXISTS chatmessagetype;")
    op.execute("DROP TYPE IF EXISTS chatthreadstatus;")

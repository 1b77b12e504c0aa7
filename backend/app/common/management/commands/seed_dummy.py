# app/common/management/commands/seed_dummy.py
from django.core.management.base import BaseCommand

from app.friends.services import add_friend
from app.highfives.services import get_highfive_service, run_sync
from app.users.services import login

DUMMY_USERNAMES = ("alice", "bob", "carol")
DUMMY_FRIENDSHIPS = (("alice", "bob"), ("alice", "carol"))


class Command(BaseCommand):
    help = "Seed dummy users and friendships for local high five testing"

    def handle(self, *args, **options):
        store = get_highfive_service().store

        # 1) Users (이미 있으면 그대로 재사용)
        users = {}
        created_count = 0
        for username in DUMMY_USERNAMES:
            user, created = run_sync(login, store, username)
            users[username] = user
            created_count += int(created)
            self.stdout.write(f"  {username}: {user.id}")
        self.stdout.write(self.style.SUCCESS(f"✅ users done (created={created_count})"))

        # 2) Friends (양방향)
        f_created = 0
        for left, right in DUMMY_FRIENDSHIPS:
            if run_sync(add_friend, store, users[left].id, users[right].id):
                f_created += 1
        self.stdout.write(self.style.SUCCESS(f"✅ friends done (created={f_created})"))

        self.stdout.write(self.style.SUCCESS("🎉 seed_dummy finished"))

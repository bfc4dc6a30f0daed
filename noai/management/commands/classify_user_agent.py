from django.core.management.base import BaseCommand

from noai.interceptor import Decision, RedirectPolicy


class Command(BaseCommand):
    help = "Report whether each User-Agent string would be redirected as an AI crawler."

    def add_arguments(self, parser):
        parser.add_argument('user_agents', nargs='+', metavar='user_agent')

    def handle(self, *args, **options):
        policy = RedirectPolicy.from_settings()
        for user_agent in options['user_agents']:
            decision = policy.classify(user_agent)
            line = f"{decision.value}\t{user_agent}"
            if decision is Decision.INTERCEPT:
                self.stdout.write(self.style.WARNING(line))
            else:
                self.stdout.write(line)

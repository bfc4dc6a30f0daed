from pathlib import Path

from django.core.management.base import BaseCommand

from noai.signatures import configured_signatures


class Command(BaseCommand):
    help = "Write a robots.txt that disallows every configured AI crawler."

    def add_arguments(self, parser):
        parser.add_argument(
            '--output',
            type=str,
            help='File to write (default: stdout)'
        )

    def handle(self, *args, **options):
        signatures = configured_signatures()
        body = signatures.robots_txt()
        output = options.get('output')

        if not output:
            self.stdout.write(body, ending='')
            return

        Path(output).write_text(body, encoding='utf-8')
        self.stdout.write(self.style.SUCCESS(f"Wrote {len(signatures)} user-agent rules to {output}"))

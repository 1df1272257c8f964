"""Text blocks shown to the operator, as jinja2 templates."""
from jinja2 import Environment, StrictUndefined
from rich.markup import escape

# Interpolated values are escaped so operator data never parses as rich markup.
template_env = Environment(
    undefined=StrictUndefined,
    finalize=lambda value: escape(str(value)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)

SUMMARY = """\
[bold blue]=== Configuration Summary ===[/bold blue]
{% for label, value in summary.items() %}
• {{ label }}: {{ value }}
{% endfor %}
• APM: Enabled
• Log Collection: Enabled
• Tracing: Enabled
"""

NEXT_STEPS = """\
[bold blue]Next steps:[/bold blue]
1. Verify API key is working: sudo {{ binary }} status | grep 'API Key'
2. Restart your Node.js application to enable tracing
3. Install Datadog tracing library: npm install dd-trace
4. Add tracing to your app.js: require('dd-trace').init()
5. Check your Datadog dashboard at https://app.{{ site }}
"""

NODEJS_INSTRUCTIONS = """\
[bold blue]=== Node.js Application Integration ===[/bold blue]
Add this to the very beginning of your app.js file:

const tracer = require('dd-trace').init({
  service: '{{ service }}',
  env: '{{ environment }}',
  version: '{{ version }}'
});

Then install the tracing library:
npm install dd-trace

For PM2, you can also set these environment variables:
DD_SERVICE={{ service }}
DD_ENV={{ environment }}
DD_VERSION={{ version }}
"""

AUTH_TROUBLESHOOTING = """\
[bold blue]=== API Key Troubleshooting Guide ===[/bold blue]
[bold red]If you're seeing 'API Key invalid' errors, try these steps:[/bold red]

1. Verify your API key is correct:
   • Log into your Datadog account
   • Go to Organization Settings > API Keys
   • Copy the correct API key ({{ key_length }} characters)

2. Verify you're using the correct Datadog site:
   • Check your Datadog URL in the browser
{% for site, hint in site_hints %}
   • {{ hint }} → use {{ site }}
{% endfor %}

3. If the site is wrong, reconfigure the agent:
   • Stop the agent: sudo {{ binary }} stop
   • Edit the config: sudo nano {{ config_path }}
   • Change the 'site:' line to match your account
   • Restart: sudo {{ binary }} start

4. Test the configuration:
   • Run: sudo {{ binary }} status
   • Look for 'API Key valid: True'
"""

GENERIC_TROUBLESHOOTING = """\
For general troubleshooting:
Check logs with: {{ log_hint }}
"""

HEALTH_TIMEOUT = """\
[bold blue]=== Troubleshooting Information ===[/bold blue]
1. Check agent status: sudo {{ binary }} status
2. Check agent logs: sudo {{ binary }} logs
3. Check system logs: {{ log_hint }}
4. Check configuration: sudo {{ binary }} configcheck
5. Check permissions: ls -la {{ config_root }}/
6. Check if agent is running: ps aux | grep datadog

[bold blue]=== Current Diagnostic Info ===[/bold blue]
Processes:
{% for line in bundle.processes %}
{{ line }}
{% endfor %}

Configuration check:
{% for line in bundle.configcheck %}
{{ line }}
{% endfor %}

Recent logs:
{% for line in bundle.log_tail %}
{{ line }}
{% endfor %}
"""


def render(source: str, **context) -> str:
    return template_env.from_string(source).render(**context)

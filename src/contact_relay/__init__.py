# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP relay for website contact forms and local sendmail callers.

Features:
    - Direction-routed delivery to configured recipient groups
    - Direct delivery for sendmail-style callers (cron, ``mail``)
    - Whole-word block list screening
    - HTML stripping unless the recipient group allows HTML
    - Streamed multipart uploads with a size-bounded attachment budget
    - Per-client rate limiting behind an optional trusted proxy
    - Optional archive of every delivered message as ``.eml``
    - Prometheus metrics for monitoring
    - FastAPI REST API and a click CLI

Example::

    from contact_relay.api import create_app
    from contact_relay.config import load_config
    from contact_relay.service import RelayService

    app = create_app(RelayService(load_config("contact-relay.toml")))
"""

__version__ = "1.0.0"

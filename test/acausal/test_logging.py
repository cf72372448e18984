# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

import logging

from acausal import EqnEnv
from acausal import logging as acausal_logging
from acausal import rotational as rot


def test_logdata_attaches_component():
    ev = EqnEnv()
    spring = rot.Spring(ev, name="spring")
    data = acausal_logging.logdata(component=spring, n_eqs=2)
    assert data == {
        "extra": {"extras": {"n_eqs": 2, "component": "spring", "template": "Spring"}}
    }
    assert acausal_logging.logdata() == {}


def test_scope_logging_traces_entry_and_exit(caplog):
    @acausal_logging.scope_logging
    def stage():
        """A build stage."""
        return 3

    caplog.set_level(logging.DEBUG, logger="acausal")
    assert stage() == 3
    assert stage.__doc__ == "A build stage."
    messages = [r.getMessage() for r in caplog.records]
    assert any("Entering" in m and "stage" in m for m in messages)
    assert any("Exiting" in m and "stage" in m for m in messages)


def test_file_handler_renders_context(tmp_path):
    path = tmp_path / "acausal.log"
    logger = acausal_logging.logger
    handler = acausal_logging.set_file_handler(str(path))
    acausal_logging.set_log_level(logging.INFO)
    try:
        logger.info("diagram processed")
        logger.info("reduced", **acausal_logging.logdata(n_states=4))
    finally:
        handler.close()
        logger.removeHandler(handler)
    lines = path.read_text().splitlines()
    assert lines == [
        "acausal:INFO diagram processed",
        "acausal:INFO reduced n_states=4",
    ]

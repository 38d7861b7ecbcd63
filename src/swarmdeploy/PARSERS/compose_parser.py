# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Reading and writing Docker Compose YAML files.

Compose files are kept as plain dictionaries so keys this package does not
understand survive a load/dump round trip untouched.
"""
import yaml
from typing import Dict, Any


class ComposeCodec:
    """
    YAML codec for docker-compose.yml files.
    """

    @staticmethod
    def parse(content: str) -> Dict[str, Any]:
        """
        Parses compose YAML from a string.

        :param content: YAML content of the compose file.
        :return: The compose document, empty if the content is empty.
        """
        data = yaml.safe_load(content)
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("Compose file must contain a mapping at the top level")
        return data

    @staticmethod
    def serialize(data: Dict[str, Any]) -> str:
        """
        Serializes a compose document, preserving key order.
        """
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)

    def load(self, compose_path: str) -> Dict[str, Any]:
        """
        Loads a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: The compose document.
        """
        with open(compose_path, 'r') as f:
            content = f.read()
        return self.parse(content)

    def dump(self, data: Dict[str, Any], compose_path: str):
        """
        Writes a compose document back to ``compose_path``.
        """
        with open(compose_path, 'w') as f:
            f.write(self.serialize(data))


def compose_version(compose: Dict[str, Any]) -> str:
    """
    Returns the declared format version as a string, empty if absent.
    """
    version = compose.get('version')
    if version is None:
        return ""
    return str(version)

"""Shared fixtures: a main repository checked out next to a template repository."""

from pathlib import Path
from types import SimpleNamespace

import pytest


PIPELINE_YAML = """\
trigger:
  - main

resources:
  repositories:
    - repository: templates
      type: git
      name: MyOrg/sibling-repo
      ref: refs/heads/main

stages:
  - template: ../templates/local-template.yml
    parameters:
      region: westus
  - template: stages/build.yml@templates
    parameters:
      buildConfiguration: Release
      publishArtifact: true
  - template: stages/missing.yml@templates
  - template: stages/other.yml@nosuchalias
  - template: ${{ variables.dynamicTemplate }}
"""

LOCAL_TEMPLATE_YAML = """\
parameters:
  - name: environment
    type: string
  - name: region
    type: string
    default: eastus

steps:
  - script: echo Deploying to ${{ parameters.environment }} in ${{ parameters.region }}
"""

BUILD_TEMPLATE_YAML = """\
parameters:
  - name: buildConfiguration
    type: string
  - name: dotnetVersion
    type: string
    default: '8.0.x'
  - name: publishArtifact
    type: boolean
    default: true

stages:
  - stage: Build
    jobs:
      - job: Build
        steps:
          - script: dotnet build -c ${{ parameters.buildConfiguration }}
          - template: /steps/publish.yml
            parameters:
              enabled: ${{ parameters.publishArtifact }}
"""

PUBLISH_TEMPLATE_YAML = """\
parameters:
  - name: enabled
    type: boolean
    default: false

steps:
  - ${{ if eq(parameters.enabled, true) }}:
    - publish: $(Build.ArtifactStagingDirectory)
"""


def write(path: Path, text: str) -> Path:
    """Write text to path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def repos(tmp_path):
    """
    Two sibling checkouts under one parent directory.

    main-repo holds the pipeline and a local template; sibling-repo holds
    the templates referenced through the ``templates`` alias.
    """
    base = tmp_path.resolve()
    main = base / "main-repo"
    sibling = base / "sibling-repo"
    (main / ".git").mkdir(parents=True)
    (sibling / ".git").mkdir(parents=True)

    return SimpleNamespace(
        base=base,
        main=main,
        sibling=sibling,
        pipeline=write(main / "pipelines" / "azure-pipelines.yml", PIPELINE_YAML),
        local_template=write(main / "templates" / "local-template.yml", LOCAL_TEMPLATE_YAML),
        build=write(sibling / "stages" / "build.yml", BUILD_TEMPLATE_YAML),
        publish=write(sibling / "steps" / "publish.yml", PUBLISH_TEMPLATE_YAML),
    )


@pytest.fixture
def corpus(tmp_path):
    """Factory for small single-repository corpora: corpus({"a.yml": "..."})."""
    root = tmp_path.resolve() / "repo"
    (root / ".git").mkdir(parents=True)

    def _make(files):
        return {name: write(root / name, text) for name, text in files.items()}

    _make.root = root
    return _make

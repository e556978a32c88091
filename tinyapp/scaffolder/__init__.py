"""TinyApp Factory scaffolder -- creates drafts and adds features to them.

A draft is a copy of one stack template (``tinyapp/stacks/<stack>/``) with
its placeholders filled in, plus the editor guidance files.  Features
(database, sync, auth) are layered on afterwards.

Quick usage::

    from tinyapp.scaffolder import ProjectScaffolder, ScaffoldOptions

    scaffolder = ProjectScaffolder(config)
    project = await scaffolder.create(ScaffoldOptions(name="Demo App"))
"""

from .features import FeatureInstaller, FeatureResult
from .generator import ProjectScaffolder, ScaffoldOptions
from .templates import TemplateRenderer

__all__ = [
    "FeatureInstaller",
    "FeatureResult",
    "ProjectScaffolder",
    "ScaffoldOptions",
    "TemplateRenderer",
]

import typing as t
from bevy import get_container


class Depends:
    """Dependency container shared by repositories.

    Holds the process-wide collaborators (settings, tagged cache) so that
    repositories constructed without explicit arguments pick up whatever was
    wired at startup.
    """

    @staticmethod
    def set(class_: t.Any, instance: t.Any = None, module: str | None = None) -> t.Any:
        """Register a class/instance in the dependency container.

        Returns the instance that was registered.
        """
        if instance is None:
            instance = class_()
        get_container().add(class_, instance, qualifier=module)
        return instance

    @staticmethod
    def get_sync(category: t.Any, module: str | None = None) -> t.Any:
        """Get a registered dependency.

        Single-element tuples (a quirk of some container versions) are unwrapped.
        """
        result = get_container().get(category, qualifier=module)
        if isinstance(result, tuple):
            if len(result) == 1:
                return result[0]
            msg = f"Dependency '{category}' resolved to {len(result)} values"
            raise RuntimeError(msg)
        return result

    async def get(self, category: t.Any, module: str | None = None) -> t.Any:
        return self.get_sync(category, module)


depends = Depends()

__all__ = ["Depends", "depends", "get_container"]

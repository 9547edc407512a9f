from typing import BinaryIO, Optional, Union


class StorageProvider:
    def put(self, key: str, data: Union[bytes, BinaryIO], content_type: str) -> None:
        raise NotImplementedError

    def get_download_url(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

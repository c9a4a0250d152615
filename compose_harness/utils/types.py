import pathlib as pl
import typing as tp

FileType = str | pl.Path
FileTypeList = list[FileType] | list[str] | list[pl.Path]
# Arguments passed to the external tool
ArgsType = tp.Sequence[str]
EnvType = tp.Mapping[str, str]

import albumentations as A
from albumentations.pytorch import ToTensorV2
from omegaconf import DictConfig


def get_transforms(mode: str, cfg: DictConfig) -> A.Compose:
    transforms = []

    if mode == "train" and cfg.data.augment:
        transforms.extend([
            A.HorizontalFlip(p=0.5),
            A.VerticalFlip(p=0.5),
        ])
    elif mode not in ("train", "validation"):
        raise ValueError(f"Unsupported mode: {mode}")

    # (H, W, C) -> (C, H, W) for both image and mask
    transforms.append(ToTensorV2(transpose_mask=True))
    return A.Compose(transforms)

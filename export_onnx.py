import argparse

from floodseg.inference import load_model
from floodseg.inference.onnx_runtime import export_onnx, verify_onnx


def export_checkpoint(checkpoint_path: str, onnx_path: str) -> None:
    # The checkpoint carries its own config
    model = load_model(checkpoint_path)
    data_cfg = model.cfg.data
    export_onnx(
        model,
        onnx_path,
        height=data_cfg.tile_height,
        width=data_cfg.tile_width,
        channels=data_cfg.channels,
    )
    verify_onnx(onnx_path)
    print('Model exported successfully')


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Export a trained flood U-Net checkpoint to ONNX")
    parser.add_argument("checkpoint", help="Lightning checkpoint (.ckpt)")
    parser.add_argument("--output", default="onnx/model.onnx", help="Where to write the ONNX file")
    args = parser.parse_args()
    export_checkpoint(args.checkpoint, args.output)
